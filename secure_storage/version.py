"""Secure Storage Meta information.
   Secure Storage keeps sensitive session artifacts (tokens, region
   assignments, cached lookups) encrypted and TTL-aware in local key/value
   stores.
"""
__title__ = 'secure_storage'
__description__ = (
   'Encrypted, TTL-aware local key/value persistence '
   'for sensitive session artifacts.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
