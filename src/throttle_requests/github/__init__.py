"""GitHub REST collaborators: contributor listing and profile fetches."""
