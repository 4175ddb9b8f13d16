"""HTTP route builders."""
