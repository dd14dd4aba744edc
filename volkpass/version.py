"""VolkPass Core Meta information.
   VolkPass Core holds the authentication, MFA and credential risk logic
   behind the VolkPass credential vault.
"""
__title__ = 'volkpass'
__description__ = (
   'Session, second-factor and credential risk core '
   'for the VolkPass credential vault.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2024 VolkPass Contributors'
__author__ = 'VolkPass Contributors'
__license__ = 'Apache-2.0'
