"""
Mentorly API service package.

The service fronts the mentor endpoints with a request gate enforcing:
- Security headers and CORS (including preflight termination)
- Fixed-window rate limiting per user or client IP
- CSRF validation for session-based, state-changing requests
- Input sanitization of query, body and cookie parameters

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.security: Request gate, token verification, CSRF, headers, passwords.
- app.ratelimit: Fixed-window limiter and counter stores.
- app.mentors: Mentor repository and login/status logic.
"""
