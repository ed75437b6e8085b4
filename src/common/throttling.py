from ninja_extra.throttling import AnonRateThrottle


class AnonDefaultThrottle(AnonRateThrottle):
    rate = "60/min"


class PassExportThrottle(AnonRateThrottle):
    rate = "30/min"


class ScanThrottle(AnonRateThrottle):
    rate = "120/min"
