"""
Gap-weighted subsequence kernels over the match positions of pairwise alignment edit scripts.

Examples:
    >>> from lodhi import Cigar, Lodhi, compute
    >>> cigar = Cigar.parse(b'2=1D3=')
    >>> compute(cigar, k=3, lambda_decay=0.5)
    0.421875
    >>> Lodhi(3, 0.5)(cigar)
    0.421875
"""
from lodhi.core.cigar import Cigar, CigarOp, CigarError
from lodhi.engines.lodhi import Lodhi, compute, compute_many, match_positions, KernelError, DecayWarning
from lodhi.utils.resources import RESOURCES, LodhiWarning

__all__ = [
    'Cigar', 'CigarOp', 'CigarError', 'Lodhi', 'compute', 'compute_many', 'match_positions', 'KernelError',
    'DecayWarning', 'LodhiWarning', 'RESOURCES'
]
