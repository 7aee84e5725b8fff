from app.models.event import Event, EventTable
from app.models.guest import Guest
from app.models.session import GuestSession
from app.models.photo import Photo
from app.models.otp import OTPVerification
from app.models.admin import Admin

__all__ = ["Event", "EventTable", "Guest", "GuestSession", "Photo", "OTPVerification", "Admin"]
