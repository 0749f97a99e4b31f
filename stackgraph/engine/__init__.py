"""Graph construction, reference resolution and synthesis"""
