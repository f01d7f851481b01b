"""OAuth2/PKCE broker and vehicle data proxy for a fleet telematics API."""
