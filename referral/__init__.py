"""referral/ -- Referral-forest policy for Bonus Auth.

Layer rule: referral/ imports only stdlib + third-party libraries.
It does NOT import from api/ or auth/. auth/ and api/ import from referral/.
"""
