"""auth/ -- Accounts, sessions, and authorization for the placement backend.

Layer rule: auth/ imports from core/ (settings, errors) and mail/ (delivery
of confirmation and reset links) plus third-party libraries. It does NOT
import from api/ or placement/. api/ imports from auth/, not the other way
around; placement/ only uses auth.policy and the UserStore lookups.
"""
