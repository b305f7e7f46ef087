"""
AWS RDS backed provider
"""

# Local
from .provider import RDSProvider
