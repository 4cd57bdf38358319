"""
AgriAdvisor - farmer advisory backend with an offline-first sync client
"""

__version__ = "1.0.0"
