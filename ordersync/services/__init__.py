"""Business services — resolver, importer, write coordinator, projection."""
