"""
BankDash Dashboard - client-side session support for the banking dashboard.
"""
