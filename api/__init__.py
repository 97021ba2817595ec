"""
HTTP surface of the card pipeline.
"""
