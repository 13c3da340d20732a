"""
Authentication and authorization package for the IoT Intrusion Dashboard.

Provides:
- JWT token creation and validation
- Password hashing
- Role-based access control dependencies
- The device permission resolver used by the access decision engine
"""
