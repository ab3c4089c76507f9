"""
                Pastificio Backend

Order management, reporting and backup backend for a fresh-pasta shop:
clients book orders for pickup, staff follow them through the kitchen,
and the admin side keeps compressed, encrypted archives of every record.

Author: Khalil_Bannouri
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Khalil_Bannouri"
