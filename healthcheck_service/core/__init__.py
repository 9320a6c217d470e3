# Core services
