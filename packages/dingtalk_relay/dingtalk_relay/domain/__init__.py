"""Domain layer: exceptions, enums and collaborator interfaces."""
