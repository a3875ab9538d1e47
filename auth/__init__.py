"""auth/ -- Accounts, credentials and sessions for Bonus Auth.

Layer rule: auth/ imports only stdlib + third-party libraries, core/ and
referral/. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
