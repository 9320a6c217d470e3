# Interfaces
