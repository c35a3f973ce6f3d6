"""
Core translation modules
"""
