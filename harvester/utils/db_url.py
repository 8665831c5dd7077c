from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode, quote

_ASYNCPG_SCHEME = "postgresql"
_SCHEME_ALIASES = (
    "postgres://",
    "postgresql+asyncpg://",
    "postgresql+psycopg2://",
    "postgresql+psycopg://",
)


def normalize_database_url(raw: str) -> str:
    """
    Rewrite a connection string into the plain ``postgresql://`` form asyncpg
    accepts. Credentials, host, port and database are kept as given.
    """
    s = " ".join((raw or "").strip().strip('"').strip("'").split())
    if not s:
        raise RuntimeError("DATABASE_URL is empty")

    for alias in _SCHEME_ALIASES:
        if s.startswith(alias):
            s = "postgresql://" + s[len(alias):]
            break

    p = urlsplit(s)
    if p.scheme != _ASYNCPG_SCHEME:
        raise RuntimeError(f"Unsupported database scheme: {p.scheme or '<none>'}")

    username = p.username or ""
    password = p.password or ""
    host = p.hostname or ""
    port = f":{p.port}" if p.port else ""

    userinfo = ""
    if username:
        userinfo = quote(username, safe="")
        if p.password is not None:
            userinfo += ":" + quote(password, safe="")
        userinfo += "@"

    netloc = f"{userinfo}{host}{port}"

    q = dict(parse_qsl(p.query, keep_blank_values=True))
    if "sslmode" in q:
        q["ssl"] = q.pop("sslmode")

    new_query = urlencode(q, doseq=True)
    return urlunsplit((_ASYNCPG_SCHEME, netloc, p.path, new_query, p.fragment))


def mask_database_url(url: str) -> str:
    p = urlsplit(url)
    if p.password is None:
        return url
    netloc = p.netloc.replace(f":{p.password}@", ":***@", 1)
    return urlunsplit((p.scheme, netloc, p.path, p.query, p.fragment))
