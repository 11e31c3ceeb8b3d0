"""
HR Kernel -- shared core for the employee data automation worker.

Provides:
- ORM base classes and engine/session management
- Structured JSON logging with bound job context
- Typed exception hierarchy with machine-readable codes
- Injectable clock
- Employee, user and access-control models
- Sensitive-data, access-configuration and membership services
"""

__version__ = "0.1.0"
