"""HTTP routers for the Difference Between server."""
