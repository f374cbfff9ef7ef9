"""Cancel every open order on the configured pair (asks for confirmation)."""
import sys

import httpx
from hyperliquid.exchange import Exchange
from hyperliquid.info import Info
from hyperliquid.utils.signing import CancelRequest

from ladderbot.config.config import Settings

cfg = Settings.load()
account_address = cfg.resolve_account()

info = Info(cfg.base_url, skip_ws=True)
coin_key = info.name_to_coin.get(cfg.symbol, cfg.symbol)

client = httpx.Client(timeout=cfg.http_timeout)
resp = client.post(
    f"{cfg.base_url.rstrip('/')}/info",
    json={"type": "frontendOpenOrders", "user": account_address},
)
open_orders = [o for o in resp.json() if o.get("coin") == coin_key]
print(f"=== Open orders on {cfg.symbol} ({coin_key}): {len(open_orders)} ===")
for o in open_orders:
    print(f"  oid={o.get('oid')} side={o.get('side')} px={o.get('limitPx')} sz={o.get('sz')}")

if not open_orders:
    sys.exit(0)

if len(sys.argv) > 1 and sys.argv[1] == "--yes":
    confirm = "yes"
else:
    confirm = input("\nCancel ALL these orders? Type 'yes' to confirm: ")
if confirm.lower() != "yes":
    print("Aborted")
    sys.exit(0)

exchange = Exchange(cfg.resolve_signer(), cfg.base_url, account_address=account_address)
oids = [int(o["oid"]) for o in open_orders if o.get("oid") is not None]
batch_size = 20
for i in range(0, len(oids), batch_size):
    batch_oids = oids[i:i + batch_size]
    batch = [CancelRequest(coin=cfg.symbol, oid=oid) for oid in batch_oids]
    try:
        result = exchange.bulk_cancel(batch)
        print(f"  Batch {i // batch_size + 1}: cancelled {len(batch)} orders - status: {result.get('status', 'ok')}")
    except Exception as e:
        print(f"  Batch {i // batch_size + 1}: bulk failed ({e}), trying individual...")
        for oid in batch_oids:
            try:
                exchange.cancel(cfg.symbol, oid)
                print(f"    Cancelled oid={oid}")
            except Exception as e2:
                print(f"    Failed oid={oid}: {e2}")
