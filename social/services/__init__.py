"""
Service layer: every state change made by the API goes through here.

Views translate HTTP to these calls and back; services raise ServiceError
subclasses from social.exceptions for expected failures.
"""
