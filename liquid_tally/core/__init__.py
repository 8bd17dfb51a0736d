"""Delegation graph, stakes, tallying and the property system."""
