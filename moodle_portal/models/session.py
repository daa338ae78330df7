from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.sql import func
from . import Base
import json


class PortalSessionRecord(Base):
    """One serialized UserSession per browser client"""
    __tablename__ = 'portal_sessions'

    key = Column(String(128), primary_key=True)
    payload = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def get_payload(self):
        return json.loads(self.payload)

    def set_payload(self, data):
        self.payload = json.dumps(data)


class UserSession:
    """
    The signed-in portal user.

    The plaintext password is kept only so the SSO hand-off can fall back to
    posting the Moodle login form on the user's behalf.
    """

    def __init__(self, id, username, fullname='', email='', profile_image=None,
                 firstname='', lastname='', password=None, is_authenticated=True):
        self.id = id
        self.username = username
        self.fullname = fullname
        self.email = email
        self.profile_image = profile_image
        self.firstname = firstname
        self.lastname = lastname
        self.password = password
        self.is_authenticated = is_authenticated

    @classmethod
    def from_user(cls, user, password):
        return cls(
            id=user.id,
            username=user.username,
            fullname=user.fullname,
            email=user.email,
            profile_image=user.profileimageurlsmall,
            firstname=user.firstname,
            lastname=user.lastname,
            password=password,
        )

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'fullname': self.fullname,
            'email': self.email,
            'profileImage': self.profile_image,
            'firstname': self.firstname,
            'lastname': self.lastname,
            'password': self.password,
            'isAuthenticated': self.is_authenticated,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            username=data['username'],
            fullname=data.get('fullname', ''),
            email=data.get('email', ''),
            profile_image=data.get('profileImage'),
            firstname=data.get('firstname', ''),
            lastname=data.get('lastname', ''),
            password=data.get('password'),
            is_authenticated=data.get('isAuthenticated', True),
        )
