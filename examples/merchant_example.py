"""
Server-side checkout example. The frontend posts card fields (or a token from
Tap's card SDK); the server authorizes with 3-D-Secure and captures when no
challenge is needed. Runs against the in-memory simulator unless
TAP_SECRET_KEY is set.
"""
import os
from tap_checkout import GatewayConfig, FinalizationSequencer, SimulatorConnector, TapConnector
from tap_checkout.connectors.base import AuthorizeRequest, CardDetails

def run():
    config = GatewayConfig.from_env()
    connector = TapConnector(config) if os.getenv("TAP_SECRET_KEY") else SimulatorConnector()
    sequencer = FinalizationSequencer(connector)
    req = AuthorizeRequest(
        amount=10,
        currency="USD",
        order_id="ORD-1001",
        card=CardDetails(number="5123450000000008", exp_month=11, exp_year=25, cvc="100"),
    )
    outcome = sequencer.start(req)
    if outcome.transaction_url:
        print("Redirect the browser to:", outcome.transaction_url)
    print("Outcome:", outcome.model_dump_json(indent=2))
    connector.close()

if __name__ == "__main__":
    run()
