"""Plugin system: DataObject protocols, base classes, built-in types and pluggy registration."""
