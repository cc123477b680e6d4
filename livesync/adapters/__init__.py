"""Concrete adapters for the query and introspection services."""

from .graphql import GraphQLGateway, build_poll_query

__all__ = ["GraphQLGateway", "build_poll_query"]
