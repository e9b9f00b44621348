from fastapi import Request


def query_params(request: Request) -> dict[str, str | list[str]]:
    """
    Reusable FastAPI dependency returning the raw query string as a bag.

    Filters are open-ended (``name_contains``, ``rating_gte``, ``_sort`` …)
    so they cannot be declared as ``Query`` parameters; the service layer
    validates them against the content type instead.

    A key given once maps to its string value; a repeated key
    (``?name=a&name=b``) maps to the list of its values.
    """
    bag: dict[str, str | list[str]] = {}
    for key, value in request.query_params.multi_items():
        if key not in bag:
            bag[key] = value
        elif isinstance(bag[key], list):
            bag[key].append(value)
        else:
            bag[key] = [bag[key], value]
    return bag
