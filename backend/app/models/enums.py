"""
User roles enumeration.

Defines the role types for the tutoring marketplace.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Supreme user with system-level access (credit adjustments)
        TEACHER: Owns class slots and runs lessons
        STUDENT: Buys credits and books slots (default role)
    """
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"
