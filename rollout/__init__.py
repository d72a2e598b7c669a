"""
contract-rollout: ordered, resumable smart contract deployments with explorer verification.
"""
