"""Show spot balances and open orders for the configured pair."""
import httpx

from ladderbot.config.config import Settings

cfg = Settings.load()
user = cfg.resolve_account()
url = f"{cfg.base_url.rstrip('/')}/info"
client = httpx.Client(timeout=cfg.http_timeout)

# Resolve the pair's coin key ("@107" style for most spot pairs)
meta = client.post(url, json={"type": "spotMeta"}).json()
tokens = {t["index"]: t["name"] for t in meta.get("tokens", [])}
coin_key = cfg.symbol
for u in meta.get("universe", []):
    names = [tokens.get(i) for i in u.get("tokens", [])]
    if names == [cfg.trading_coin, cfg.quote_asset]:
        coin_key = u.get("name", cfg.symbol)
        break

# Balances
state = client.post(url, json={"type": "spotClearinghouseState", "user": user}).json()
print(f"Balances for {user}:")
for b in state.get("balances", []):
    total = float(b.get("total", 0))
    if total != 0:
        hold = float(b.get("hold", 0))
        print(f"  {b.get('coin')}: total={total} hold={hold} available={total - hold}")

# Open orders
orders = client.post(url, json={"type": "frontendOpenOrders", "user": user}).json()
mine = [o for o in orders if o.get("coin") in (coin_key, cfg.symbol)]
print(f"\nOpen orders on {cfg.symbol} ({coin_key}): {len(mine)} of {len(orders)} total")
for o in sorted(mine, key=lambda o: float(o.get("limitPx", 0)), reverse=True):
    side = "BUY " if o.get("side") == "B" else "SELL"
    print(f"  {side} oid={o.get('oid')} px={o.get('limitPx')} sz={o.get('sz')}")

mids = client.post(url, json={"type": "allMids"}).json()
print(f"\nMid: {mids.get(coin_key, 'N/A')}")
