"""
GeneticOptimizer - Evolutionary Parameter Search

Evolves a population of lattice-aligned parameter vectors:
- Elitism: the best `elitism_count` eligible individuals survive unchanged
- Selection: two tournament draws of `tournament_size` pick the parents
- Crossover: single point over the parameter key order
- Mutation: each parameter re-drawn from its lattice with `mutation_rate`

Children of one generation are independent, so each generation is
evaluated as one batch (optionally fanned out with joblib).

Best for:
- Large search spaces where a full grid is too expensive
- Rugged objectives with several local optima
"""

from typing import Dict, List, Optional
import logging

from .base import (
    BaseOptimizer, GeneticOptions, OptimizationEntry, ParamSpace, SearchRun,
    random_params,
)

log = logging.getLogger(__name__)

_UNFIT = float('-inf')


class Individual:
    __slots__ = ('params', 'score')

    def __init__(self, params: Dict[str, float], score: float = _UNFIT):
        self.params = params
        self.score = score


def tournament_select(population: List[Individual], tournament_size: int, rng) -> Individual:
    """Best of `tournament_size` random draws (with replacement)."""
    best: Optional[Individual] = None
    for _ in range(tournament_size):
        candidate = population[int(rng.integers(0, len(population)))]
        if best is None or candidate.score > best.score:
            best = candidate
    return best


def crossover(parent1: Dict[str, float], parent2: Dict[str, float], keys: List[str], rng) -> Dict[str, float]:
    """Keys before the cut point come from parent1, the rest from parent2."""
    cut = int(rng.integers(0, len(keys)))
    return {key: parent1[key] if i < cut else parent2[key] for i, key in enumerate(keys)}


def mutate(params: Dict[str, float], space: ParamSpace, mutation_rate: float, rng) -> Dict[str, float]:
    mutated = dict(params)
    for key, spec in space.items():
        if rng.random() < mutation_rate:
            mutated[key] = spec.value_at(int(rng.integers(0, spec.count)))
    return mutated


class GeneticOptimizer(BaseOptimizer):
    """
    Genetic algorithm over the parameter lattice.

    Example:
        optimizer = GeneticOptimizer(engine)
        entries = optimizer.optimize(
            'macd-crossover', config, candles,
            options=GeneticOptions(population_size=30, generations=10, seed=7)
        )
    """

    name = 'genetic'
    options_class = GeneticOptions

    def _search(self, run: SearchRun) -> List[OptimizationEntry]:
        options = run.options
        rng = run.rng
        keys = list(run.space)
        run.total = options.population_size * (options.generations + 1)
        entries: List[OptimizationEntry] = []

        log.info(
            f"Starting evolution: population={options.population_size}, "
            f"generations={options.generations}, seed={run.seed}"
        )

        population = self._evaluate(
            run, [random_params(run.space, rng) for _ in range(options.population_size)], 0, entries
        )
        population.sort(key=lambda ind: ind.score, reverse=True)
        self._log_generation(0, population)

        for generation in range(1, options.generations + 1):
            if run.stop_requested():
                break

            elites = [ind for ind in population[:options.elitism_count] if ind.score > _UNFIT]
            children = []
            while len(elites) + len(children) < options.population_size:
                parent1 = tournament_select(population, options.tournament_size, rng)
                parent2 = tournament_select(population, options.tournament_size, rng)
                child = crossover(parent1.params, parent2.params, keys, rng)
                children.append(mutate(child, run.space, options.mutation_rate, rng))

            population = elites + self._evaluate(run, children, generation, entries)
            population.sort(key=lambda ind: ind.score, reverse=True)
            self._log_generation(generation, population)

        return entries

    def _evaluate(
        self,
        run: SearchRun,
        candidates: List[Dict[str, float]],
        generation: int,
        entries: List[OptimizationEntry]
    ) -> List[Individual]:
        individuals = []
        for params, evaluation in zip(candidates, run.evaluate_candidates(candidates)):
            if evaluation is None:
                individuals.append(Individual(params))
                continue
            individuals.append(Individual(params, evaluation.score))
            entries.append(OptimizationEntry(
                params=evaluation.params,
                score=evaluation.score,
                result=evaluation.result,
                generation=generation,
            ))
        return individuals

    def _log_generation(self, generation: int, population: List[Individual]) -> None:
        best = population[0].score if population else _UNFIT
        text = f"{best:.3f}" if best > _UNFIT else 'N/A'
        if generation % 5 == 0:
            log.info(f"Generation {generation}: best score {text}")
        else:
            log.debug(f"Generation {generation}: best score {text}")
