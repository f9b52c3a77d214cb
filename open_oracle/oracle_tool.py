"""
Oracle Operator Tool

Helpers for setting up and auditing an oracle deployment: writing a sample
configuration with sample report parameters, and recomputing the integrity
hash a reporter must present for a given report.
"""
import json
import argparse
import logging
from pathlib import Path

from cryptography.hazmat.primitives import serialization

from open_oracle.config import Config
from open_oracle.crypto import generate_key_pair, serialize_public_key, public_key_to_address
from open_oracle.oracle import compute_integrity_hash
from open_oracle.report_state import CreateReportParams, ReportConfig


def generate_sample_config(output_path: str, params_path: str = None):
    """Writes the default oracle configuration and a sample report parameter file."""
    config = Config.default()
    config.to_file(output_path)
    print(f"Generated default oracle configuration at: {output_path}")

    priv, pub = generate_key_pair()
    creator = public_key_to_address(serialize_public_key(pub))

    params = CreateReportParams(
        asset1=bytes.fromhex('00' * 19 + 'a1'),
        asset2=bytes.fromhex('00' * 19 + 'a2'),
        exact_asset1_amount=10**18,
        fee_rate=3000,
        escalation_multiplier=110,
        settlement_duration=300,
        escalation_halt=10**21,
        dispute_delay=5,
        protocol_fee_rate=1000,
        settler_reward=1000,
    )
    params_path = params_path or str(Path(output_path).with_name("report_params.json"))
    sample = params.to_dict()
    sample['creator'] = creator.hex()
    sample['bond'] = 10_000
    with open(params_path, 'w') as f:
        json.dump(sample, f, indent=2)

    print(f"Generated sample report parameters at: {params_path}")
    print("\nSample creator key (DO NOT USE IN PRODUCTION):")
    pem = priv.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    print(f"  - Address {creator.hex()}: {pem.hex()}")


def integrity_hash_from_file(params_path: str, creation_tick: int, creator: str = None,
                             bond: int = None) -> bytes:
    """
    Recomputes the integrity hash of a report from its creation parameters.

    Args:
        params_path (str): JSON file with the creation parameters.
        creation_tick (int): Tick the report was created at, in its time unit.
        creator (str): Creator address in hex. Falls back to the file's 'creator'.
        bond (int): Creation bond. Falls back to the file's 'bond'.
    """
    with open(params_path, 'r') as f:
        data = json.load(f)

    creator = creator or data.pop('creator', None)
    bond = bond if bond is not None else data.pop('bond', None)
    data.pop('creator', None)
    data.pop('bond', None)
    if creator is None or bond is None:
        raise ValueError("creator and bond are required")

    params = CreateReportParams.from_dict(data)
    config = ReportConfig(
        asset1=params.asset1,
        asset2=params.asset2,
        exact_asset1_amount=params.exact_asset1_amount,
        fee_rate=params.fee_rate,
        escalation_multiplier=params.escalation_multiplier,
        settlement_duration=params.settlement_duration,
        escalation_halt=params.escalation_halt,
        dispute_delay=params.dispute_delay,
        protocol_fee_rate=params.protocol_fee_rate,
        settler_reward=params.settler_reward,
        reporter_reward=int(bond) - params.settler_reward,
        creation_tick=creation_tick,
        time_unit=params.time_unit,
    )
    return compute_integrity_hash(
        config, bytes.fromhex(creator), params.keep_fee_on_dispute,
        params.callback_target, params.callback_selector, params.callback_gas_limit,
    )


def main(argv=None):
    parser = argparse.ArgumentParser(description="Oracle Operator Tool")
    parser.add_argument("--log-level", type=str, default=None, help="Override the logging level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Command to generate a sample config
    parser_sample = subparsers.add_parser("sample-config", help="Generate a sample oracle config")
    parser_sample.add_argument("--output", type=str, default="oracle.json", help="Output file path")
    parser_sample.add_argument("--params-output", type=str, default=None, help="Sample report parameter file path")

    # Command to compute a report's integrity hash
    parser_hash = subparsers.add_parser("state-hash", help="Compute the integrity hash of a report")
    parser_hash.add_argument("--params", type=str, required=True, help="Path to report parameter JSON")
    parser_hash.add_argument("--creation-tick", type=int, required=True, help="Tick the report was created at")
    parser_hash.add_argument("--creator", type=str, default=None, help="Creator address (hex)")
    parser_hash.add_argument("--bond", type=int, default=None, help="Creation bond")

    args = parser.parse_args(argv)
    if args.log_level:
        logging.getLogger().setLevel(args.log_level.upper())

    if args.command == "sample-config":
        generate_sample_config(args.output, args.params_output)
    elif args.command == "state-hash":
        digest = integrity_hash_from_file(args.params, args.creation_tick, args.creator, args.bond)
        print(digest.hex())


if __name__ == '__main__':
    main()
