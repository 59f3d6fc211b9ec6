"""
BanBridge - Core Module
=======================
"""
