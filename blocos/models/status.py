"""Attendance status enumeration."""
import enum


class EventStatus(str, enum.Enum):
    maybe = "maybe"
    going = "going"
    sure = "sure"
