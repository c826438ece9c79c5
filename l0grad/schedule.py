class ContinuationSchedule:
    """
    Penalty weights used by the outer iterations.

    Starting from beta0, each outer iteration uses the current beta and then
    multiplies it by kappa. The loop stops once beta >= beta_max or after
    iter_max iterations, whichever comes first.
    """

    def __init__(self, beta0: float, beta_max: float, kappa: float, iter_max: int = 1000):
        if kappa <= 1:
            raise ValueError(f"kappa must be greater than 1, got {kappa}")
        if iter_max < 1:
            raise ValueError(f"iter_max must be at least 1, got {iter_max}")
        self.beta0 = beta0
        self.beta_max = beta_max
        self.kappa = kappa
        self.iter_max = iter_max

    @classmethod
    def from_config(cls, config):
        return cls(2 * config.lam, config.beta_max, config.kappa, config.iter_max)

    def __iter__(self):
        beta = self.beta0
        count = 0
        while beta < self.beta_max:
            yield beta
            beta = beta * self.kappa
            count += 1
            if count >= self.iter_max:
                break

    def __len__(self):
        return sum(1 for _ in self)
