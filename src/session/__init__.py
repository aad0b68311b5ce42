"""
Session registry for rooms and peer roles.
"""

from .registry import SessionRegistry, Room, Role, validate_room_name

__all__ = ['SessionRegistry', 'Room', 'Role', 'validate_room_name']
