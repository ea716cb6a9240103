"""
guard_chain — Hello World

Guards run in registration order against the request context.
The first failure stops the chain and goes to the error handler.
"""

import asyncio

from guard_chain import GuardChain, Principal, RequestContext, Response
from guard_chain.auth import ApiKeyStrategy
from guard_chain.guards import (
    AuthenticatorGuard,
    AuthorizerGuard,
    CustomGuard,
    RateLimitGuard,
    ResponseCacheGuard,
    TracerGuard,
    ValidatorGuard,
    by_principal,
)

# ─── Your handler (plain function, no framework imports needed) ───


def search_documents(ctx: RequestContext) -> dict:
    query = ctx.query["q"]
    return {
        "response": f"Found results for '{query}'",
        "user": ctx.principal.id,
    }


def show(label: str, response: Response) -> None:
    print(f"  {label}: {response.status} {response.body}")
    cache = response.headers.get("X-Cache")
    if cache:
        print(f"    X-Cache: {cache}")


async def main():
    # ──────────────────────────────────────
    #  1. Build the chain (order = execution order)
    # ──────────────────────────────────────
    keys = {
        "alice-key": Principal(id="alice", roles=frozenset({"engineer"})),
        "eve-key": Principal(id="eve", roles=frozenset({"guest"})),
    }

    base = GuardChain(
        [
            TracerGuard(),
            AuthenticatorGuard([ApiKeyStrategy(keys=keys)]),
        ]
    )

    search = base.use(
        ValidatorGuard(
            {"query": {"properties": {"q": {"type": "string", "required": True, "min_length": 1}}}}
        ),
        AuthorizerGuard(roles=["engineer"], deny_reason="Engineering only"),
        CustomGuard(
            name="no_wildcards",
            check=lambda ctx: "*" not in ctx.query["q"],
            deny_reason="Wildcard queries are not allowed",
        ),
        RateLimitGuard(max_requests=3, window_seconds=60, key=by_principal),
        ResponseCacheGuard(ttl_seconds=30),
    )
    protected = search.protect(search_documents)

    def request(key: str, q: str) -> RequestContext:
        return RequestContext(
            method="GET", path="/search", headers={"X-API-Key": key}, query={"q": q}
        )

    # ──────────────────────────────────────
    #  2. Allowed request, then a cache hit
    # ──────────────────────────────────────
    print("=== Allowed request ===\n")
    show("first", await protected(request("alice-key", "architecture")))
    show("again", await protected(request("alice-key", "architecture")))

    # ──────────────────────────────────────
    #  3. Failures from different guards
    # ──────────────────────────────────────
    print("\n=== Denied requests ===\n")
    show("empty query", await protected(request("alice-key", "")))
    show("unknown key", await protected(request("nope", "architecture")))
    show("wrong role", await protected(request("eve-key", "architecture")))
    show("wildcard", await protected(request("alice-key", "*")))

    # ──────────────────────────────────────
    #  4. Rate limit exhaustion
    # ──────────────────────────────────────
    print("\n=== Rate limit exhaustion ===\n")
    for i in range(4):
        show(f"request #{i + 1}", await protected(request("alice-key", f"topic {i}")))

    print("\nChain JSON: ", search.export())


if __name__ == "__main__":
    asyncio.run(main())
