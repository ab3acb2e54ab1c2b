"""Cosmos DB access: client, repositories and the project change feed."""
