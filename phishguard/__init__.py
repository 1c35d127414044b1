"""PhishGuard: client-side phishing detection core."""
