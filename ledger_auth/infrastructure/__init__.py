"""Infraestructura: pool PostgreSQL + implementaciones de los stores."""
