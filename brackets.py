"""Bracket construction and progression for elimination tournaments.

Templates are plain dictionaries so they can be inspected without a
database; ``generate_bracket`` turns one into ``Match`` rows and
``complete_match`` drives results through the slot wiring.
"""
import math

from flask import current_app

from models import (
    db,
    BYE,
    MAX_TOURNAMENT_SLOTS,
    Match,
    Profile,
    Tournament,
    current_time,
)

MIN_BRACKET_PLAYERS = 2
GRAND_FINAL_SLOT = 'GF'
RESET_SLOT = 'BR'


def bracket_size_for(player_count: int) -> int:
    return 1 << (player_count - 1).bit_length()


def seed_order(bracket_size: int) -> list[int]:
    """Standard seeding order: for eight players 1v8, 4v5, 2v7, 3v6."""
    if bracket_size <= 2:
        return [1, 2]
    upper_half = seed_order(bracket_size // 2)
    order = []
    for seed in upper_half:
        order.extend([seed, bracket_size + 1 - seed])
    return order


def _stage_name_for_round(total_rounds: int, round_index: int) -> str:
    remaining = total_rounds - round_index
    if remaining == 0:
        return 'Final'
    if remaining == 1:
        return 'Semifinal'
    if remaining == 2:
        return 'Quarterfinal'
    return f'Round of {2 ** (remaining + 1)}'


def _winners_stage_name(total_rounds: int, round_index: int) -> str:
    return f'Winners {_stage_name_for_round(total_rounds, round_index)}'


def _losers_stage_name(round_index: int, total_rounds: int) -> str:
    remaining = total_rounds - round_index
    if remaining == 0:
        return 'Losers Final'
    if remaining == 1:
        return 'Losers Semifinal'
    return f'Losers Round {round_index}'


def build_template(player_count: int, double_elimination: bool = False) -> dict:
    """Produce a deterministic bracket layout, BYEs included."""
    if player_count < MIN_BRACKET_PLAYERS or player_count > MAX_TOURNAMENT_SLOTS:
        raise ValueError('Unsupported bracket size')

    size = bracket_size_for(player_count)
    winners_rounds = int(math.log2(size))
    slots: dict[str, dict] = {}

    def add(slot, side, round_number, position, stage):
        info = {
            'slot': slot,
            'side': side,
            'round': round_number,
            'position': position,
            'stage': stage,
            'seeds': {1: None, 2: None},
            'placeholders': {1: None, 2: None},
            'winner_to': None,
            'loser_to': None,
        }
        slots[slot] = info
        return info

    def link(source, key, target, position, verb):
        source[key] = (target['slot'], position)
        target['placeholders'][position] = f"{verb} of {source['slot']}"

    stage_for = _winners_stage_name if double_elimination else _stage_name_for_round
    winners: list[list[dict]] = []
    matches_in_round = size // 2
    for round_number in range(1, winners_rounds + 1):
        stage = stage_for(winners_rounds, round_number)
        winners.append([
            add(f'W{round_number}-M{idx + 1}', 'winners', round_number, idx + 1, stage)
            for idx in range(matches_in_round)
        ])
        matches_in_round //= 2

    order = seed_order(size)
    for idx, info in enumerate(winners[0]):
        for position, seed in ((1, order[2 * idx]), (2, order[2 * idx + 1])):
            if seed <= player_count:
                info['seeds'][position] = seed
            else:
                info['placeholders'][position] = BYE

    for round_idx in range(winners_rounds - 1):
        for idx, info in enumerate(winners[round_idx]):
            link(info, 'winner_to', winners[round_idx + 1][idx // 2], 1 if idx % 2 == 0 else 2, 'Winner')

    losers_rounds = 0
    if double_elimination:
        losers_rounds = 2 * (winners_rounds - 1)
        losers: list[list[dict]] = []
        for round_number in range(1, losers_rounds + 1):
            if round_number == 1:
                count = size // 4
            elif round_number % 2 == 0:
                count = len(losers[-1])
            else:
                count = len(losers[-1]) // 2
            stage = _losers_stage_name(round_number, losers_rounds)
            row = [
                add(f'L{round_number}-M{idx + 1}', 'losers', round_number, idx + 1, stage)
                for idx in range(count)
            ]
            if round_number == 1:
                # minor round: first-round losers pair off
                for idx, info in enumerate(row):
                    link(winners[0][2 * idx], 'loser_to', info, 1, 'Loser')
                    link(winners[0][2 * idx + 1], 'loser_to', info, 2, 'Loser')
            elif round_number % 2 == 0:
                # major round: drop-downs meet the survivors
                dropping = winners[round_number // 2]
                for idx, info in enumerate(row):
                    link(dropping[idx], 'loser_to', info, 1, 'Loser')
                    link(losers[-1][idx], 'winner_to', info, 2, 'Winner')
            else:
                for idx, info in enumerate(row):
                    link(losers[-1][2 * idx], 'winner_to', info, 1, 'Winner')
                    link(losers[-1][2 * idx + 1], 'winner_to', info, 2, 'Winner')
            losers.append(row)

        grand_final = add(GRAND_FINAL_SLOT, 'grand_final', winners_rounds + 1, 1, 'Grand Final')
        link(winners[-1][0], 'winner_to', grand_final, 1, 'Winner')
        if losers:
            link(losers[-1][0], 'winner_to', grand_final, 2, 'Winner')
        else:
            link(winners[-1][0], 'loser_to', grand_final, 2, 'Loser')

    return {
        'size': player_count,
        'effective_size': size,
        'winners_rounds': winners_rounds,
        'losers_rounds': losers_rounds,
        'slots': slots,
    }


def _slot_map(tournament: Tournament) -> dict[str, Match]:
    return {m.slot: m for m in Match.query.filter_by(tournament_id=tournament.id).all()}


def generate_bracket(tournament: Tournament) -> list[Match]:
    """Seed confirmed players and create every match row for the tournament."""
    if Match.query.filter_by(tournament_id=tournament.id).count():
        raise ValueError('Bracket has already been generated.')

    entrants = sorted(
        (r for r in tournament.registrations if r.status == 'confirmed'),
        key=lambda r: (r.registered_at or current_time(), r.id),
    )
    if len(entrants) < MIN_BRACKET_PLAYERS:
        raise ValueError(f'At least {MIN_BRACKET_PLAYERS} confirmed players are required to start.')

    template = build_template(len(entrants), tournament.is_double_elimination)
    seeds = {}
    for seed, registration in enumerate(entrants, start=1):
        registration.seed = seed
        seeds[seed] = registration.user_id

    slots: dict[str, Match] = {}
    for info in template['slots'].values():
        match = Match(
            tournament=tournament,
            slot=info['slot'],
            bracket_side=info['side'],
            round=info['round'],
            position=info['position'],
            stage=info['stage'],
            status='pending',
        )
        for position in (1, 2):
            seed = info['seeds'][position]
            player_id = seeds.get(seed) if seed else None
            setattr(match, f'player{position}_id', player_id)
            setattr(match, f'player{position}_placeholder', None if player_id else info['placeholders'][position])
        if info['winner_to']:
            match.winner_to_slot, match.winner_to_position = info['winner_to']
        if info['loser_to']:
            match.loser_to_slot, match.loser_to_position = info['loser_to']
        db.session.add(match)
        slots[match.slot] = match

    db.session.flush()

    for match in list(slots.values()):
        if match.bracket_side == 'winners' and match.round == 1:
            if match.has_both_players:
                _notify_ready(match)
            _settle_byes(match, slots)

    current_app.logger.info(
        'Generated %s bracket for tournament %s: %s players, %s matches',
        tournament.format, tournament.id, len(entrants), len(slots),
    )
    return list(slots.values())


def start_tournament(tournament: Tournament) -> list[Match]:
    if tournament.status != 'registration':
        raise ValueError('Only tournaments open for registration can be started.')
    tournament.transition('ongoing')
    return generate_bracket(tournament)


def complete_match(match: Match, winner_id: int | None) -> None:
    """Close a match and move both players on to their next slots."""
    if match.status == 'completed':
        raise ValueError('This match has already been completed.')
    if winner_id is not None and winner_id not in (match.player1_id, match.player2_id):
        raise ValueError('Winner must be one of the players in this match.')
    _complete(match, winner_id, _slot_map(match.tournament))


def _complete(match: Match, winner_id: int | None, slots: dict[str, Match]) -> None:
    loser_id = None
    if winner_id:
        loser_id = match.player2_id if winner_id == match.player1_id else match.player1_id

    match.winner_id = winner_id
    match.status = 'completed'
    match.completed_at = current_time()

    if match.winner_to_slot:
        _place(slots, match.winner_to_slot, match.winner_to_position, winner_id)
    if match.loser_to_slot:
        _place(slots, match.loser_to_slot, match.loser_to_position, loser_id)

    if match.slot == GRAND_FINAL_SLOT:
        _after_grand_final(match, slots)
    elif not match.winner_to_slot and winner_id:
        _crown(match.tournament, winner_id)


def _place(slots: dict[str, Match], slot: str, position: int, player_id: int | None) -> None:
    target = slots.get(slot)
    if target is None:
        return
    setattr(target, f'player{position}_id', player_id)
    setattr(target, f'player{position}_placeholder', None if player_id else BYE)
    if target.status == 'pending' and target.has_both_players:
        _notify_ready(target)
    _settle_byes(target, slots)


def _settle_byes(match: Match, slots: dict[str, Match]) -> None:
    if match.status == 'completed':
        return
    if match.is_bye(1) and match.is_bye(2):
        _complete(match, None, slots)
    elif match.is_bye(1) and match.player2_id:
        _complete(match, match.player2_id, slots)
    elif match.is_bye(2) and match.player1_id:
        _complete(match, match.player1_id, slots)


def _after_grand_final(match: Match, slots: dict[str, Match]) -> None:
    if not match.winner_id:
        return
    if match.winner_id == match.player1_id or not match.player2_id:
        _crown(match.tournament, match.winner_id)
        return

    reset = slots.get(RESET_SLOT)
    if reset is None:
        reset = Match(
            tournament=match.tournament,
            slot=RESET_SLOT,
            bracket_side='grand_final',
            round=match.round + 1,
            position=1,
            stage='Bracket Reset',
            status='pending',
            player1_id=match.player1_id,
            player2_id=match.player2_id,
        )
        db.session.add(reset)
        slots[RESET_SLOT] = reset
        _notify_ready(reset)
        current_app.logger.info('Bracket reset created for tournament %s', match.tournament_id)


def _crown(tournament: Tournament, winner_id: int) -> None:
    tournament.winner_id = winner_id
    if tournament.status != 'completed':
        tournament.transition('completed')
    champion = db.session.get(Profile, winner_id)
    if champion:
        champion.notify(
            f'You won {tournament.name}!',
            category='success',
            kind='tournament_won',
            link_target=f'/dashboard/tournaments/{tournament.id}',
        )
    current_app.logger.info('Tournament %s completed, winner %s', tournament.id, winner_id)


def _notify_ready(match: Match) -> None:
    tournament = match.tournament
    if tournament is None or tournament.status != 'ongoing':
        return
    for player_id in (match.player1_id, match.player2_id):
        player = db.session.get(Profile, player_id) if player_id else None
        if player:
            player.notify(
                f'Your {match.stage or match.slot} match in {tournament.name} is ready.',
                category='info',
                kind='match_ready',
                link_target=f'/dashboard/tournaments/{tournament.id}',
            )
