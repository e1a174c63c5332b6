"""
Chat client package.

Main exports:
- ChatClient: Console chat client session
"""

from client.client import ChatClient, ClientState

__all__ = ['ChatClient', 'ClientState']
