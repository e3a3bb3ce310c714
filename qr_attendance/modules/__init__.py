# QR Attendance Session System - Modules Package
"""
Core business logic modules for the QR attendance session system.
"""
