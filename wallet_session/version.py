"""Wallet Session Meta information.
   Wallet Session keeps password-encrypted signing keys at rest and
   releases them through short-lived, in-memory unlocked sessions.
"""
__title__ = 'wallet_session'
__description__ = (
   'Wallet Session keeps password-encrypted signing keys at rest '
   'and releases them through short-lived unlocked sessions.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2024 Rootstock Lending Bot contributors'
__author__ = 'Rootstock Lending Bot contributors'
__author_email__ = 'dev@rootstock-lending.invalid'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/rootstock-lending/wallet-session'
