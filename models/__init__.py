"""
Models Package

This file ensures all SQLAlchemy models are imported and registered,
which is required for foreign keys and create_all to work correctly.
"""

from models.base import Base
from models.shop import Shop
from models.location import Location
from models.pool import Pool
from models.chatroom import Chatroom
from models.basket import Basket
from models.chat_membership import ChatMembership
from models.message import Message

__all__ = [
    'Base',
    'Shop',
    'Location',
    'Pool',
    'Chatroom',
    'Basket',
    'ChatMembership',
    'Message',
]
