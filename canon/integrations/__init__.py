"""
Third-party integrations (Sentry, GitHub issues).
"""
