from locust import HttpUser, task, between
import random

_formats = ['png', 'jpeg', 'webp']
_sampling = ['nearest', 'triangle', 'catmullrom', 'gaussian', 'lanczos3']


class AsyncLocustTask(HttpUser):
    wait_time = between(0.01, 0.05)

    @task
    def get_resized(self):
        idx = random.randint(0, 3)
        image_format = random.choice(_formats)
        self.client.get(f'/uploads/img{idx}.{image_format}', params={'w': random.choice([50, 100, 300])},
                        name='Get resized image')

    @task
    def get_stretched(self):
        idx = random.randint(0, 3)
        self.client.get(f'/uploads/img{idx}.webp',
                        params={'w': 200, 'h': 200, 'stretch': 'true', 'sampling': random.choice(_sampling)},
                        name='Get stretched image')
