"""Built-in DataObject types."""
