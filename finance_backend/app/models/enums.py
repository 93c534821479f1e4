"""
User roles enumeration.

Defines the role types allowed to reach the financial endpoints.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Full access, including dead-letter queue operations
        MANAGER: Unit manager, reads financial reports
        BARBER: Staff member, no access to financial data
    """
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    BARBER = "BARBER"
