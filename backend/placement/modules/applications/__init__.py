"""
Application module.

An Application links one applicant to one opportunity and carries its own
status machine plus an optional post-confirmation withdrawal request.
"""
