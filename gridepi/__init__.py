"""gridepi: stochastic epidemic spread on a square grid of cells.

A cellular-automaton model in which every cell is Healthy, Sick, Immune
or Dead:
  - Sick cells infect each Healthy Moore neighbour with probability p_0
  - Sickness lasts a fixed number of ticks, then ends in death (d_0)
    or temporary immunity
  - Immunity lasts a fixed number of ticks, then the cell is Healthy again
  - Two-phase (evaluate / commit) ticks make the update order-independent

The engine only reports per-tick change sets and aggregate counts; drawing
them is left to the caller.
"""

__version__ = "0.1.0"
