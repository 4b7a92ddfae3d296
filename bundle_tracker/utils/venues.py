"""
Known exchange venues and block explorer links per network
"""

from typing import Optional

UNKNOWN_VENUE = "Unknown"

# Router / aggregator contracts, lower-cased
DEX_ROUTERS = {
    'ethereum': {
        '0x7a250d5630b4cf539739df2c5dacb4c659f2488d': 'Uniswap V2',
        '0xe592427a0aece92de3edee1f18e0157c05861564': 'Uniswap V3',
        '0x68b3465833fb72a70ecdf485e0e4c7bd8665fc45': 'Uniswap V3',
        '0x3fc91a3afd70395cd496c647d5a6cc9d4b2b7fad': 'Uniswap Universal Router',
        '0xd9e1ce17f2641f24ae83637ab66a2cca9c378b9f': 'SushiSwap',
        '0x1111111254fb6c44bac0bed2854e76f90643097d': '1inch',
        '0x1111111254eeb25477b68fb85ed929f73a960582': '1inch',
        '0xdef1c0ded9bec7f1a1670819833240f027b25eff': '0x Exchange Proxy',
    },
    'bsc': {
        '0x10ed43c718714eb63d5aa57b78b54704e256024e': 'PancakeSwap V2',
        '0x13f4ea83d0bd40e75c8222255bc855a974568dd4': 'PancakeSwap V3',
        '0x1111111254eeb25477b68fb85ed929f73a960582': '1inch',
    },
    'polygon': {
        '0xa5e0829caced8ffdd4de3c43696c57f7d7a678ff': 'QuickSwap',
        '0x1b02da8cb0d097eb8d57a175b88c7d8b47997506': 'SushiSwap',
        '0xe592427a0aece92de3edee1f18e0157c05861564': 'Uniswap V3',
    },
}

EXPLORERS = {
    'ethereum': 'https://etherscan.io',
    'bsc': 'https://bscscan.com',
    'polygon': 'https://polygonscan.com',
}


def identify_venue(address: Optional[str], network: str) -> str:
    """Exchange name for a destination address, "Unknown" if unrecognized"""
    if not address:
        return UNKNOWN_VENUE
    return DEX_ROUTERS.get(network, {}).get(address.lower(), UNKNOWN_VENUE)


def is_known_venue(address: Optional[str], network: str) -> bool:
    return identify_venue(address, network) != UNKNOWN_VENUE


def explorer_tx_link(tx_hash: str, network: str) -> Optional[str]:
    base = EXPLORERS.get(network)
    if not base or not tx_hash:
        return None
    return f"{base}/tx/{tx_hash}"


def explorer_address_link(address: str, network: str) -> Optional[str]:
    base = EXPLORERS.get(network)
    if not base or not address:
        return None
    return f"{base}/address/{address}"
