HTTP_SCHEME = "http://"


def normalize_address(address: str) -> str:
    """
    Strip the ``http://`` prefix from a ``host:port`` dial target.

    No other scheme is recognized. ``"http://"`` alone normalizes to an
    empty string, which callers must treat as unresolved.

    Parameters
    ----------
    address : str
        Address as configured or returned by the gateway

    Returns
    -------
    str
        Address usable as a gRPC target
    """
    if address.startswith(HTTP_SCHEME):
        return address[len(HTTP_SCHEME):]
    return address
