from decimal import getcontext
from pathlib import Path

import fire
from eth_account import Account
from web3 import Web3

from payouts import env
from payouts.claims import ClaimsAggregator
from payouts.config import load_conf
from payouts.ledger import content_hash, parse_ledger
from payouts.logger import configure_logging
from payouts.merkle import build_tree
from payouts.models import ClaimsResult, Writer
from payouts.signing import ContextSigner
from payouts.submit import ClaimSubmitter

getcontext().prec = 42


def load_claims(wallet: str, config: str, workers: int = 4) -> ClaimsResult:
    conf = load_conf(config)
    aggregator = ClaimsAggregator(conf, max_workers=workers)
    return aggregator.load_claims_for_wallet(wallet)


def claims(wallet: str, config: str = "claims-conf.json", out: str = "reports", workers: int = 4):
    """Load every claim window for `wallet` and write the report"""
    configure_logging()
    result = load_claims(wallet, config, workers)

    Writer(wallet, out).write_claims(result)
    summary = result.summary()
    print(f"💰 Earned {summary['earned']}, claimed {summary['claimed']}, unclaimed {summary['unclaimed']}")
    print(f"🚀 Report written to {out}/{wallet.lower()}")
    return summary


def claim(config: str = "claims-conf.json", workers: int = 4):
    """Claim every unclaimed holding of the wallet behind CLAIMER_PRIVATE_KEY"""
    configure_logging()
    account = Account.from_key(env.claimer_private_key())
    conf = load_conf(config)

    # the claimer signs its own contexts
    aggregator = ClaimsAggregator(conf, signer=ContextSigner(account), max_workers=workers)
    result = aggregator.load_claims_for_wallet(account.address)
    if result.totals.unclaimed.wei == 0:
        print("😴 Nothing to claim")
        return None

    w3 = Web3(Web3.HTTPProvider(env.rpc_url()))
    submission = ClaimSubmitter(w3, account).build_and_submit_claim(result.holdings)
    print(
        f"✅ Claimed {submission.amount} from {len(submission.submitted)} holdings "
        f"on {submission.orderbook} in {submission.txHash}"
    )
    if submission.skipped:
        print(
            f"⏭ Left {submission.skipped_amount} in {len(submission.skipped)} holdings "
            "on other order books, run again to claim them"
        )
    return submission.txHash


def root(csv_path: str):
    """Content hash and merkle root of a local ledger, for publishing a claim window"""
    raw = Path(csv_path).read_bytes()
    tree = build_tree(parse_ledger(raw))
    out = {
        "expectedContentHash": content_hash(raw),
        "expectedMerkleRoot": tree.root,
        "rows": len(tree),
    }
    print(f"🌳 {out}")
    return out


def main():
    fire.Fire({"claims": claims, "claim": claim, "root": root})


if __name__ == "__main__":
    main()
