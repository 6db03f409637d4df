"""An image's builds ordered by build number."""

from imagewright.models.build import IMAGE_LABEL, Build


class BuildList:
    """Builds sorted by their numeric build number label.

    Creation timestamps are not used for ordering; they are not reliable
    under clock skew.
    """

    def __init__(self, builds):
        self.builds = sorted(builds, key=lambda build: build.build_number())
        self.successful_builds = [b for b in self.builds if b.is_success()]
        self.failed_builds = [b for b in self.builds if b.is_failure()]

    @classmethod
    def for_image(cls, store, image):
        builds = store.list(Build, image.namespace, {IMAGE_LABEL: image.name})
        return cls([b for b in builds if b.is_controlled_by(image)])

    @property
    def last_build(self):
        return self.builds[-1] if self.builds else None

    def build_counter(self, counter=0):
        """Highest build number handed out so far, never going backwards."""
        last = self.last_build
        return max(counter, last.build_number() if last is not None else 0)

    def oldest_success(self):
        return self.successful_builds[0]

    def oldest_failure(self):
        return self.failed_builds[0]

    def __len__(self):
        return len(self.builds)
