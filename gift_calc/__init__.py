"""
gift-calc - Core Modules
"""

__version__ = '1.0.0'

from .argument_parser import ArgumentParser, ParseResult, parse_arguments
from .calculator import GiftCalculator, GiftResult
from .config import Command, ConfigStore, GiftConfig
from .naughty_list import NaughtyList
from .spending_log import SpendingLog

__all__ = [
    'ArgumentParser',
    'ParseResult',
    'parse_arguments',
    'GiftCalculator',
    'GiftResult',
    'Command',
    'ConfigStore',
    'GiftConfig',
    'NaughtyList',
    'SpendingLog',
]
