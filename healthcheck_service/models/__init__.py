# Models package
