"""
Identity resolution package.
"""
