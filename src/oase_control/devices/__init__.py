"""Device-family specific payload builders."""
