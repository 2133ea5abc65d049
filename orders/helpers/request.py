from stock.services.base_service import ValidationError


def query_int(request, name: str, default: int = None):
    value = request.query_params.get(name)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", name)
