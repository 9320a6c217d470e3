# Middleware
