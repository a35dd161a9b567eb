import csv
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from payouts.models.Holding import ClaimsResult
from payouts.models.types import EthereumAddress


@dataclass
class Writer:
    wallet: EthereumAddress
    root: str = "reports"

    @property
    def path(self) -> str:
        return f"{self.root}/{self.wallet.lower()}"

    @property
    def csv_path(self) -> str:
        return f"{self.path}/csv"

    @property
    def json_path(self) -> str:
        return f"{self.path}/json"

    @staticmethod
    def flatten_json(y):
        out = {}

        def flatten(x, name=""):
            if type(x) is dict:
                for a in x:
                    flatten(x[a], name + a + "_")
            elif type(x) is list:
                for i, a in enumerate(x):
                    flatten(a, name + str(i) + "_")
            else:
                out[name[:-1]] = x

        flatten(y)
        return out

    def flatten_json_array(self, data):
        return [self.flatten_json(item) for item in data]

    @staticmethod
    def write_csv(data, path: str, fieldnames: list[str]) -> None:
        with open(path, "w+", newline="") as f:
            writer = csv.DictWriter(
                f, delimiter=",", fieldnames=fieldnames, extrasaction="ignore"
            )
            writer.writeheader()
            writer.writerows(data)

    # create the directory in the reports folder for csv and json if it doesn't exist
    def _create_dir(self) -> None:
        Path(self.csv_path).mkdir(parents=True, exist_ok=True)
        Path(self.json_path).mkdir(parents=True, exist_ok=True)

    def to_csv(self, data, name: str, fieldnames: list[str]) -> None:
        self._create_dir()
        self.write_csv(data, f"{self.csv_path}/{name}.csv", fieldnames)

    def to_json(self, data, name: str) -> None:
        self._create_dir()
        with open(f"{self.json_path}/{name}.json", "w") as f:
            json.dump(data, f, indent=4)

    def to_csv_and_json(self, data: Any, name: str) -> None:
        if isinstance(data, list):
            csv_data = self.flatten_json_array(data)
            keys = list(csv_data[0].keys()) if len(csv_data) > 0 else []
        else:
            csv_data = [self.flatten_json(data)]
            keys = list(csv_data[0].keys())
        self.to_json(data, name)
        self.to_csv(csv_data, name, keys)

    def write_claims(self, result: ClaimsResult) -> None:
        """
        Full result as json, the summary as json and csv, plus one flat csv row
        per holding and per claim. Proofs and signed contexts only go to the json file.
        """
        self.to_json(result.model_dump(mode="json"), "claims")
        self.to_csv_and_json(result.summary(), "summary")

        holdings = [
            {
                "field": h.fieldName,
                "token": h.tokenAddress,
                "orderHash": h.orderHash,
                "ledgerRowId": h.ledgerRowId,
                "unclaimed": str(h.unclaimedAmount),
                "orderbook": h.orderBookAddress,
            }
            for h in result.all_holdings()
        ]
        history = [
            {
                "field": c.fieldName,
                "token": c.tokenAddress,
                "orderHash": c.orderHash,
                "ledgerRowId": c.ledgerRowId,
                "amount": str(c.amount),
                "txHash": c.transactionHash,
                "timestamp": c.timestamp,
            }
            for c in result.claimHistory
        ]
        self.to_csv(holdings, "holdings", HOLDINGS_FIELDS)
        self.to_csv(history, "claim_history", HISTORY_FIELDS)


HOLDINGS_FIELDS = ["field", "token", "orderHash", "ledgerRowId", "unclaimed", "orderbook"]
HISTORY_FIELDS = ["field", "token", "orderHash", "ledgerRowId", "amount", "txHash", "timestamp"]
