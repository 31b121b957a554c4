"""
Laundry Marketplace API
"""
