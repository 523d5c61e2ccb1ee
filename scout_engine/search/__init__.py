"""Search/retrieval backend client."""
