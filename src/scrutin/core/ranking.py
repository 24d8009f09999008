"""
======================== INDEX ========================
1. Description générale / Overview
2. Composants principaux / Main components
3. Notes de maintenance / Maintenance notes

======================== FRANÇAIS ========================
Fichier : `src/scrutin/core/ranking.py`.
Classe les candidats d'un nœud et détermine l'élu ou l'égalité.

Composants détectés :
  - ResultState
  - resolve
  - result_state
  - leaders

Notes :
- Classement « compétition » : 1, 1, 3.
- Une égalité en tête n'a pas d'élu.

======================== ENGLISH ========================
File: `src/scrutin/core/ranking.py`.
Ranks a node's candidates and determines the winner or the tie.

Detected components:
  - ResultState
  - resolve
  - result_state
  - leaders

Notes:
- Standard competition ranking: 1, 1, 3.
- A tie at the top has no winner.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Tuple

from scrutin.core.models import AggregationNode, RankedResult


class ResultState(str, Enum):
    """Un nœud est exactement dans l'un de ces trois états.

    English: A node is in exactly one of these three states.
    """

    WINNER = "WINNER"
    TIE = "TIE"
    NO_DATA = "NO_DATA"


def resolve(node: AggregationNode) -> List[RankedResult]:
    """Classe les candidats par voix décroissantes.

    Seuls les candidats avec des voix participent à l'attribution de l'élu
    ou de l'égalité ; ceux à 0 voix sont classés derniers. À voix égales,
    l'ordre suit le numéro de dossier pour rester déterministe.

    Args:
        node: Nœud d'agrégation à classer.

    Returns:
        List[RankedResult]: Une ligne par candidat, du premier au dernier.

    English:
        Rank candidates by descending votes.

        Only candidates with votes take part in winner/tie determination;
        zero-vote candidates are ranked last. Equal votes are ordered by
        dossier number so the output stays deterministic.
    """
    scores = sorted(node.scores.values(), key=lambda score: (-score.votes, score.candidate_id))
    contenders = [score for score in scores if score.votes > 0]
    top_votes = contenders[0].votes if contenders else 0
    top_count = sum(1 for score in contenders if score.votes == top_votes)

    results: List[RankedResult] = []
    rank = 0
    previous_votes = None
    for position, score in enumerate(contenders, start=1):
        if score.votes != previous_votes:
            rank = position
            previous_votes = score.votes
        at_top = rank == 1
        results.append(
            RankedResult(
                candidate_id=score.candidate_id,
                votes=score.votes,
                percentage=score.percentage(node.valid_expressed_votes),
                rank=rank,
                is_winner=at_top and top_count == 1,
                is_tied=at_top and top_count > 1,
            )
        )

    last_rank = len(contenders) + 1
    for score in scores:
        if score.votes > 0:
            continue
        results.append(
            RankedResult(
                candidate_id=score.candidate_id,
                votes=score.votes,
                percentage=0.0,
                rank=last_rank,
            )
        )
    return results


def result_state(results: List[RankedResult]) -> ResultState:
    if any(result.is_winner for result in results):
        return ResultState.WINNER
    if any(result.is_tied for result in results):
        return ResultState.TIE
    return ResultState.NO_DATA


def leaders(node: AggregationNode) -> Tuple[List[str], bool]:
    """Candidats en tête d'une ligne de tableau et indicateur d'égalité.

    English: Leading candidates of a table row and the tie flag.
    """
    top = [result.candidate_id for result in resolve(node) if result.is_winner or result.is_tied]
    return top, len(top) > 1
