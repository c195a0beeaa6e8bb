import ulid


def new_id(prefix: str = "") -> str:
    """Genera un ID string ordenable (ULID) con prefijo de tipo, p.ej. 'wf_01H...'."""
    return prefix + ulid.new().str
